from live_classroom.models.user import User, UserRole
from live_classroom.models.classroom import Classroom, Enrollment
from live_classroom.models.question import Question, QuestionOption, QuestionResponse, Points
from live_classroom.models.engagement import PopupLog, FocusLog
