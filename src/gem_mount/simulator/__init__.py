from .ap_scope import APScope
from .pmc_scope import PMCScope
from .transport import SimulatedTransport

__all__ = ["APScope", "PMCScope", "SimulatedTransport"]
