"""Local state and settings synchronization core of the host agent.

Three pieces keep the agent's durable state correct when any read, write or
fetch can fail part way through:

- :mod:`hostagent.state`: DNS records snapshots saved with write-temp-then-rename
- :mod:`hostagent.settings`: settings fetched from the source, cached, merged
  with the persistent disk registry and resolved lazily
- :mod:`hostagent.platform.disk`: bounded retries around disk partitioning
"""

from .__version__ import __version__


__all__ = ["__version__"]
