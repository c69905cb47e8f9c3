from campwaitlist.models.user import User
from campwaitlist.models.camper import Camper
from campwaitlist.models.camp import Camp
from campwaitlist.models.registration import Registration

__all__ = ["User", "Camper", "Camp", "Registration"]
