"""Pure add/update/delete functions over the user, assignment and submission lists.

Every function returns new lists and leaves its inputs untouched.
"""
import uuid
from datetime import datetime, timezone

from stride.schemas import Assignment, Role, Section, Submission, SubmissionStatus, User


def new_id(prefix):
    return f"{prefix}-{uuid.uuid4().hex}"


def timestamp(now=None):
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _provided(model, partial, *ignored):
    # Omitted and None fields fall back to the model defaults.
    data = model.aliased({k: v for k, v in (partial or {}).items() if v is not None})
    for key in ignored:
        data.pop(key, None)
    return data


def _merge(item, partial):
    updates = _provided(type(item), partial, 'id')
    return type(item).model_validate({**item.model_dump(by_alias=True), **updates})


# --- ASSIGNMENTS ---
def add_assignment(assignments, partial, now=None):
    data = _provided(Assignment, partial, 'id', 'createdAt')
    assignment = Assignment.model_validate({**data, 'id': new_id('a'), 'createdAt': timestamp(now)})
    return [assignment] + list(assignments)


def update_assignment(assignments, assignment_id, partial):
    return [_merge(a, partial) if a.id == assignment_id else a for a in assignments]


def delete_assignment(assignments, submissions, assignment_id):
    """Remove the assignment and every submission made against it."""
    remaining = [a for a in assignments if a.id != assignment_id]
    kept = [s for s in submissions if s.assignment_id != assignment_id]
    return remaining, kept


# --- SUBMISSIONS ---
def add_submission(submissions, partial, now=None):
    data = _provided(Submission, partial, 'id')
    data.setdefault('submittedAt', timestamp(now))
    data.setdefault('status', SubmissionStatus.ON_TIME)
    submission = Submission.model_validate({**data, 'id': new_id('s')})
    return [submission] + list(submissions)


def submission_status(assignment, submitted_at=None):
    """LATE once the due date has passed. A bare date is due at the end of that day."""
    if not assignment.due_date:
        return SubmissionStatus.ON_TIME
    try:
        due = datetime.fromisoformat(assignment.due_date.replace('Z', '+00:00'))
    except ValueError:
        return SubmissionStatus.ON_TIME
    if len(assignment.due_date) == 10:
        due = due.replace(hour=23, minute=59, second=59)
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    submitted_at = submitted_at or datetime.now(timezone.utc)
    return SubmissionStatus.LATE if submitted_at > due else SubmissionStatus.ON_TIME


# --- USERS ---
def add_user(users, partial):
    data = _provided(User, partial, 'id')
    data.setdefault('role', Role.STUDENT)
    data.setdefault('section', Section.NONE)
    # Users keep creation order (appended), unlike assignments and submissions.
    return list(users) + [User.model_validate({**data, 'id': new_id('u')})]


def update_user(users, user_id, partial):
    return [_merge(u, partial) if u.id == user_id else u for u in users]


def delete_user(users, user_id):
    # No cascade: assignments and submissions keep their (now orphaned) references.
    return [u for u in users if u.id != user_id]


def find_user(users, full_name, password):
    wanted = (full_name or '').strip().casefold()
    for user in users:
        if user.name.casefold() == wanted:
            return user if user.password == password else None
    return None


# --- DASHBOARD SCOPING ---
def assignments_for(user, assignments):
    if user.role is Role.ADMIN:
        return list(assignments)
    if user.role is Role.TEACHER:
        return [a for a in assignments if a.teacher_id == user.id]
    return [a for a in assignments if a.section is user.section]


def submissions_for(user, assignments, submissions):
    if user.role is Role.ADMIN:
        return list(submissions)
    if user.role is Role.TEACHER:
        mine = {a.id for a in assignments if a.teacher_id == user.id}
        return [s for s in submissions if s.assignment_id in mine]
    return [s for s in submissions if s.student_id == user.id]
