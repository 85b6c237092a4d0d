from .user import User
from .supplement import Supplement
from .schedule import ScheduleSlot, IntakeLog
