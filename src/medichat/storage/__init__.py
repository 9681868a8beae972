from medichat.storage.database import Database
from medichat.storage.models import Patient, User

__all__ = ["Database", "Patient", "User"]
