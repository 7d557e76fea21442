from . import activity, notifications, profiles, push

__all__ = ["activity", "notifications", "profiles", "push"]
