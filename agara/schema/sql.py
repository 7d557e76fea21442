"""Import every mapped table so `Base.metadata` is complete for table creation."""

from __future__ import annotations

from agara.schema.mentions import Mention  # noqa: F401
from agara.schema.notifications import Notification  # noqa: F401
from agara.schema.profiles import Profile  # noqa: F401
from agara.schema.push_subscriptions import PushSubscription  # noqa: F401
