from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class RefreshStatus(str, enum.Enum):
    """Lifecycle of a refresh record"""
    PENDING = "pending"
    PROCESSING = "processing"
    SAVED = "saved"
    FAILED = "failed"
    PARTIALLY_SAVED = "partially_saved"


class CycleStatus(str, enum.Enum):
    """Refresh cycle run status"""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class FileType(str, enum.Enum):
    """Kind of data a refresh record holds"""
    PROPERTY_PRICE_DATA = "property_price_data"


def enum_values(enum_cls):
    """Persist enum values rather than member names"""
    return [member.value for member in enum_cls]
