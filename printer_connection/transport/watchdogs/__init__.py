from printer_connection.transport.watchdogs.reconnect_watchdog import ReconnectWatchdog
from printer_connection.transport.watchdogs.status_watchdog import StatusWatchdog

__all__ = ['ReconnectWatchdog', 'StatusWatchdog']
