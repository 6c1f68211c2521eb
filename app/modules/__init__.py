"""Domain modules package."""

from app.modules.appointments import models as appointments_models  # noqa: F401
from app.modules.audit import models as audit_models  # noqa: F401
from app.modules.courses import models as courses_models  # noqa: F401
from app.modules.identity import models as identity_models  # noqa: F401
from app.modules.notifications import models as notifications_models  # noqa: F401
from app.modules.payments import models as payments_models  # noqa: F401
from app.modules.subscriptions import models as subscriptions_models  # noqa: F401
