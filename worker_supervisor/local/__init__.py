"""
Local package for the worker supervisor.

It holds the merged configuration (`config`), the supervisor itself
(`supervisor`), the liveness probe client (`probe_client`) and the
operator console (`console`).
"""
