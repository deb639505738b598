from pydantic import BaseModel
from typing import List, Optional
from enum import Enum


class EquipmentStatus(str, Enum):
    OPERATIONAL = "OPERATIONAL"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"
    RESERVED = "RESERVED"
    DECOMMISSIONED = "DECOMMISSIONED"


class IntervalType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    HOURS = "HOURS"
    CUSTOM = "CUSTOM"


class TaskStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class UseType(str, Enum):
    BEFORE_USE = "BEFORE_USE"
    AFTER_USE = "AFTER_USE"


class Condition(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class EquipmentTypeCreate(BaseModel):
    name: str
    description: Optional[str] = None
    default_maintenance_interval: Optional[int] = None


class EquipmentItemBase(BaseModel):
    equipment_type_id: str
    name: str
    serial_number: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    purchase_date: Optional[str] = None
    location: Optional[str] = None
    status: EquipmentStatus = EquipmentStatus.OPERATIONAL
    notes: Optional[str] = None


class EquipmentItemCreate(EquipmentItemBase):
    pass


class EquipmentItemUpdate(BaseModel):
    name: Optional[str] = None
    serial_number: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    purchase_date: Optional[str] = None
    location: Optional[str] = None
    status: Optional[EquipmentStatus] = None
    notes: Optional[str] = None


class MaintenanceScheduleCreate(BaseModel):
    equipment_item_id: str
    name: str
    interval_type: IntervalType
    interval_value: int = 1
    checklist: List[str] = []


class MaintenanceTaskCreate(BaseModel):
    equipment_item_id: str
    schedule_id: Optional[str] = None
    title: str
    scheduled_date: str
    assigned_to: Optional[str] = None
    notes: Optional[str] = None


class TaskCompletion(BaseModel):
    performed_by: str
    checklist_results: List[dict] = []
    parts_replaced: List[str] = []
    notes: Optional[str] = None


class UseLogCreate(BaseModel):
    equipment_item_id: str
    use_type: UseType
    used_by: str
    use_date: Optional[str] = None
    condition: Condition
    defects: Optional[str] = None
    hours_used: Optional[float] = None
    location: Optional[str] = None
    notes: Optional[str] = None
