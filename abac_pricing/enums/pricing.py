from enum import Enum


class RuleType(str, Enum):
    customer_category = "customer_category"
    quantity = "quantity"
    time_based = "time_based"
    bundle = "bundle"


class AdjustmentType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"
    override = "override"


class TargetEntity(str, Enum):
    service = "service"
    package = "package"
    customer = "customer"
