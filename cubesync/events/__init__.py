from .refresh_bus import RefreshBus, RefreshEvent, Subscription, get_refresh_bus, reset_refresh_bus

__all__ = ["RefreshBus", "RefreshEvent", "Subscription", "get_refresh_bus", "reset_refresh_bus"]
