from enum import Enum

class UserRole(str, Enum):
    owner = "owner"
    admin = "admin"
    manager = "manager"
    staff = "staff"
