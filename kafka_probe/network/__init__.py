from .probe import NetworkProbe, resolve_host, tcp_connect

__all__ = ["NetworkProbe", "resolve_host", "tcp_connect"]
