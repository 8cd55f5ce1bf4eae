"""
Compare keys and values across environments.

Works on decrypted environments only and never touches keys or ciphertext.
"""

import logging
import typing

import attr

log = logging.getLogger(__name__)

Finding = typing.Tuple[str, typing.Tuple[str, ...]]

NOTHING_TO_ANALYZE = "Need at least 2 environments to analyze."


@attr.s(frozen=True)
class Report:
    environments: typing.Tuple[str, ...] = attr.ib()
    missing: typing.Tuple[Finding, ...] = attr.ib(default=())
    equal: typing.Tuple[Finding, ...] = attr.ib(default=())
    unique: typing.Tuple[str, ...] = attr.ib(default=())

    @property
    def comparable(self) -> bool:
        return len(self.environments) >= 2

    def sections(self) -> typing.List[typing.Tuple[str, typing.List[str]]]:
        sections = [
            ("Missing keys:", [f"{key} is not set in: {', '.join(envs)}" for key, envs in self.missing]),
            ("Equal values:", [f"{key} is equal in: {', '.join(envs)}" for key, envs in self.equal]),
            ("Unique values:", list(self.unique)),
        ]
        return [(title, items) for title, items in sections if items]

    def lines(self) -> typing.Iterator[str]:
        if not self.comparable:
            yield NOTHING_TO_ANALYZE
            return

        for index, (title, items) in enumerate(self.sections()):
            if index:
                yield ""
            yield title
            for item in items:
                yield f"  {item}"


def analyze(environments: typing.Mapping[str, typing.Mapping[str, str]]) -> Report:
    names = tuple(sorted(environments))
    if len(names) < 2:
        log.info(f"Only {len(names)} environments, nothing to analyze")
        return Report(names)

    keys = sorted(set().union(*(environments[name] for name in names)))
    log.debug(f"Analyzing {len(keys)} keys across {len(names)} environments")

    missing: typing.List[Finding] = []
    equal: typing.List[Finding] = []
    unique: typing.List[str] = []

    for key in keys:
        absent = tuple(name for name in names if key not in environments[name])
        if absent:
            missing.append((key, absent))

        groups: typing.Dict[str, typing.List[str]] = {}
        for name in names:
            if key in environments[name]:
                groups.setdefault(environments[name][key], []).append(name)

        shared = sorted(tuple(group) for group in groups.values() if len(group) > 1)
        equal.extend((key, group) for group in shared)

        if not absent and not shared:
            unique.append(key)

    return Report(names, tuple(missing), tuple(equal), tuple(unique))
