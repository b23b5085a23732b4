from .catalog import CourierRegistry, OrderCatalog  # noqa: F401
from .assignment import AssignmentCoordinator, resolve_snapshot_totals  # noqa: F401
from .earnings import DistanceIncentiveStrategy, EarningsLedger, NoDistanceIncentive  # noqa: F401
from .status import DeliveryStatusMachine, GeoPoint  # noqa: F401
from .workload import WorkloadReporter  # noqa: F401
