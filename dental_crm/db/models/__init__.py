"""
ORM models for the CRM entities: profiles and role permissions, clients,
visits, quotations, delivery routes, and agenda/communication logs.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .profiles import (  # noqa: F401
    Profile,
    RolePermission,
)
from .clients import Client  # noqa: F401
from .visits import Visit  # noqa: F401
from .dispatch import (  # noqa: F401
    DeliveryRoute,
    RouteItem,
)
from .orders import (  # noqa: F401
    Order,
    OrderItem,
)
from .activity import (  # noqa: F401
    Goal,
    Task,
    CallLog,
    EmailLog,
)
