from .core import AuditLog, TimeStampedModel, WorkflowTransition  # noqa: F401
from .catalog import (  # noqa: F401
    AgroTest,
    ComparisonKind,
    ComparisonRule,
    SampleType,
    SoilCategory,
    TestParameter,
)
from .orders import (  # noqa: F401
    Client,
    Invoice,
    Order,
    OrderItem,
    OrderTestParameter,
    Report,
    Sample,
    TestResult,
)
