import typing

import attr
import pytest

from sse.analysis import NOTHING_TO_ANALYZE, analyze


@attr.s(frozen=True)
class Scenario:
    name: str = attr.ib()
    environments: typing.Dict[str, typing.Dict[str, str]] = attr.ib()
    output: typing.Sequence[str] = attr.ib()

    def __str__(self):
        return self.name


@pytest.fixture(params=[
    Scenario(
        'missing-key',
        {'dev': {'A': '1', 'B': '2'}, 'prod': {'A': '3'}},
        ["Missing keys:", "  B is not set in: prod", "", "Unique values:", "  A"],
    ),
    Scenario(
        'equal-value',
        {'dev': {'A': 'x'}, 'prod': {'A': 'x'}},
        ["Equal values:", "  A is equal in: dev, prod"],
    ),
    Scenario(
        'unique-value',
        {'dev': {'A': '1'}, 'prod': {'A': '2'}},
        ["Unique values:", "  A"],
    ),
    Scenario(
        'all-sections',
        {
            'production': {'DB': 'same', 'TOKEN': 'p', 'ONLY_PROD': 'x'},
            'development': {'DB': 'same', 'TOKEN': 'd'},
            'staging': {'DB': 'other', 'TOKEN': 's'},
        },
        [
            "Missing keys:",
            "  ONLY_PROD is not set in: development, staging",
            "",
            "Equal values:",
            "  DB is equal in: development, production",
            "",
            "Unique values:",
            "  TOKEN",
        ],
    ),
    Scenario(
        'several-groups',
        {'a': {'K': '1'}, 'b': {'K': '2'}, 'c': {'K': '1'}, 'd': {'K': '2'}},
        ["Equal values:", "  K is equal in: a, c", "  K is equal in: b, d"],
    ),
    Scenario(
        'empty-environments',
        {'development': {}, 'production': {}},
        [],
    ),
], ids=str)
def scenario(request) -> Scenario:
    return request.param


def test_report_output(scenario):
    assert list(analyze(scenario.environments).lines()) == scenario.output


def test_missing_key_is_not_unique():
    report = analyze({'dev': {'A': '1', 'B': '2'}, 'prod': {'A': '3'}})
    assert report.missing == (('B', ('prod',)),)
    assert report.equal == ()
    assert report.unique == ('A',)


def test_equal_value_is_not_unique():
    report = analyze({'dev': {'A': 'x'}, 'prod': {'A': 'x'}})
    assert report.equal == (('A', ('dev', 'prod')),)
    assert report.unique == ()


def test_partially_present_key_can_be_equal():
    report = analyze({'a': {'K': 'v'}, 'b': {'K': 'v'}, 'c': {}})
    assert report.missing == (('K', ('c',)),)
    assert report.equal == (('K', ('a', 'b')),)
    assert report.unique == ()


@pytest.mark.parametrize('environments', [{}, {'development': {'A': '1'}}])
def test_needs_two_environments(environments):
    report = analyze(environments)
    assert not report.comparable
    assert list(report.lines()) == [NOTHING_TO_ANALYZE]
