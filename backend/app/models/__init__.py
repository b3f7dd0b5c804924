from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.enrollment import Enrollment, EnrollmentStatus  # noqa: F401
from app.models.lecturer_workload_limit import LecturerWorkloadLimit  # noqa: F401
from app.models.school_class import SchoolClass  # noqa: F401
from app.models.scheduled_session import ScheduledSession  # noqa: F401
from app.models.scheduling_batch import BatchStatus, SchedulingBatch, TimetableKind  # noqa: F401
from app.models.scheduling_failure import FailureStatus, SchedulingFailure  # noqa: F401
from app.models.semester import Semester  # noqa: F401
from app.models.time_slot import LearningMode, TimeSlot  # noqa: F401
from app.models.unit import Unit  # noqa: F401
from app.models.unit_assignment import UnitAssignment  # noqa: F401
from app.models.venue import Venue, VenueType  # noqa: F401
