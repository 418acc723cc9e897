from .common import *  # noqa
from .auth import *  # noqa
from .hotel import *  # noqa
from .billing import *  # noqa
from .ledger import *  # noqa
from .revenue import *  # noqa
from .invoicing import *  # noqa
from .security_audit import *  # noqa

# Platform event-bus table (transactional outbox)
from app.events.outbox import *  # noqa
