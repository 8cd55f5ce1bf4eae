"""
Stupidly Simple Environments manages encrypted environment variables for small projects.

Values are encrypted with age, keys stay readable. A single keypair decrypts everything.

\b
    master.key  age keypair (keep it out of git)
    env.toml    environment file with encrypted values (safe to commit)

The env.toml file contains one section per environment:

\b
    [development]
    API_KEY = "ENC[...]"

\b
    [production]
    API_KEY = "ENC[...]"

Create a keypair and an empty env.toml:

\b
    $ sse init

Edit the decrypted file in your $EDITOR, values are encrypted when it closes:

\b
    $ sse edit

Load an environment into your shell or run a command with it:

\b
    $ eval "$(sse load production)"
    $ sse with production -- ./deploy.sh

Deployments can provide the private key through $SSE_MASTER_KEY instead of a file.
"""

__version__ = '0.1.3'
