import base64
from datetime import datetime, timezone
from functools import wraps

from flask import Blueprint, render_template, request, jsonify, current_app, abort
from pydantic import ValidationError
from werkzeug.exceptions import BadRequest
from werkzeug.utils import secure_filename

from stride import reducers
from stride.ai_analyst import analyze_research_data, get_groq_client
from stride.schemas import Role, SubmissionFile
from stride.state import get_controller

routes = Blueprint('routes', __name__)


# --- HELPERS ---
def payload():
    data = request.get_json(silent=True)
    if data is None:
        return request.form.to_dict()
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return data


def uploaded_files(field='files'):
    files = []
    for storage in request.files.getlist(field):
        if not storage or not storage.filename:
            continue
        files.append(SubmissionFile(
            name=secure_filename(storage.filename),
            type=storage.mimetype or 'application/octet-stream',
            data=base64.b64encode(storage.read()).decode(),
        ))
    return files


def dump(items):
    return [item.to_json() for item in items]


def role_required(*roles):
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            user = get_controller().state.current_user
            if user is None:
                return jsonify(error="Not signed in"), 401
            if user.role not in roles:
                return jsonify(error="Forbidden"), 403
            return view(user, *args, **kwargs)
        return wrapper
    return decorator


@routes.errorhandler(BadRequest)
def bad_request(error):
    return jsonify(error=error.description), 400


@routes.errorhandler(ValidationError)
def invalid_fields(error):
    details = [{"field": ".".join(str(part) for part in e["loc"]), "message": e["msg"]} for e in error.errors()]
    return jsonify(error="Invalid input", details=details), 400


@routes.before_app_request
def require_ready():
    if request.endpoint in ('routes.status', 'static'):
        return None
    if not get_controller().ready:
        return jsonify(state='hydrating', error="Synchronizing research data"), 503
    return None


# --- BOOTSTRAP ASSETS ---
@routes.route('/')
@routes.route('/index.html')
def index():
    return render_template('index.html')


@routes.route('/manifest.json')
def manifest():
    return jsonify(
        name="Mustang Stride",
        short_name="Stride",
        start_url="/",
        display="standalone",
        background_color="#022c22",
        theme_color="#059669",
    )


@routes.route('/api/status')
def status():
    return jsonify(state=get_controller().phase.value)


# --- AUTH ROUTES ---
@routes.route('/api/login', methods=['POST'])
def login():
    data = payload()
    full_name = str(data.get('fullName') or data.get('name') or '').strip()
    password = str(data.get('password') or '')
    if not full_name or not password:
        return jsonify(error="Full name and password are required"), 400

    controller = get_controller()
    state = controller.state
    with state.lock:
        user = state.login.submit(state.users, full_name, password)
    if user is None:
        current_app.logger.info("Failed login for %r", full_name)
        return jsonify(error=True, message="invalid credentials :("), 401

    with controller.mutate() as state:
        state.current_user = user
    current_app.logger.info("User %s logged in", user.id)
    return jsonify(user=user.to_json())


@routes.route('/api/login/input', methods=['POST'])
def login_input():
    data = payload()
    state = get_controller().state
    with state.lock:
        state.login.on_input(full_name=data.get('fullName'), password=data.get('password'))
        error = state.login.error
    return jsonify(error=error)


@routes.route('/api/logout', methods=['POST'])
def logout():
    with get_controller().mutate() as state:
        state.current_user = None
        state.login.reset()
    return jsonify(user=None)


@routes.route('/api/session')
def current_session():
    state = get_controller().state
    with state.lock:
        user = state.current_user
        return jsonify(user=user.to_json() if user else None, loginError=state.login.error)


# --- DASHBOARD ---
@routes.route('/api/dashboard')
@role_required(Role.ADMIN, Role.TEACHER, Role.STUDENT)
def dashboard(user):
    state = get_controller().state
    with state.lock:
        assignments = reducers.assignments_for(user, state.assignments)
        submissions = reducers.submissions_for(user, state.assignments, state.submissions)
        view = {
            "role": user.role.value,
            "user": user.to_json(),
            "assignments": dump(assignments),
            "submissions": dump(submissions),
        }
        if user.role is Role.ADMIN:
            view["users"] = dump(state.users)
    return jsonify(view)


# --- ADMIN ROUTES ---
@routes.route('/api/users', methods=['POST'])
@role_required(Role.ADMIN)
def create_user(admin):
    with get_controller().mutate() as state:
        state.users = reducers.add_user(state.users, payload())
        created = state.users[-1]
    current_app.logger.info("Admin %s created user %s", admin.id, created.id)
    return jsonify(user=created.to_json()), 201


@routes.route('/api/users/<user_id>', methods=['PATCH'])
@role_required(Role.ADMIN)
def edit_user(admin, user_id):
    with get_controller().mutate() as state:
        state.users = reducers.update_user(state.users, user_id, payload())
        if state.current_user is not None and state.current_user.id == user_id:
            state.current_user = next(u for u in state.users if u.id == user_id)
    return jsonify(users=dump(state.users))


@routes.route('/api/users/<user_id>', methods=['DELETE'])
@role_required(Role.ADMIN)
def delete_user(admin, user_id):
    if user_id == admin.id:
        return jsonify(error="You cannot delete your own account"), 400
    with get_controller().mutate() as state:
        state.users = reducers.delete_user(state.users, user_id)
    return jsonify(users=dump(state.users))


@routes.route('/api/admin/analysis')
@role_required(Role.ADMIN)
def analysis(admin):
    state = get_controller().state
    with state.lock:
        assignments, submissions = list(state.assignments), list(state.submissions)
    client = get_groq_client(current_app.config.get('GROQ_API_KEY'))
    return jsonify(analysis=analyze_research_data(assignments, submissions, client=client))


# --- TEACHER ROUTES ---
def _owned(teacher, assignment_id, assignments):
    assignment = next((a for a in assignments if a.id == assignment_id), None)
    if assignment is None:
        return None, None
    if teacher.role is Role.TEACHER and assignment.teacher_id != teacher.id:
        return assignment, (jsonify(error="Not your assignment"), 403)
    return assignment, None


@routes.route('/api/assignments', methods=['POST'])
@role_required(Role.TEACHER)
def create_assignment(teacher):
    data = payload()
    data.update(teacherId=teacher.id, teacherName=teacher.name)
    data.setdefault('subject', teacher.subject)
    data.setdefault('section', teacher.section.value)
    attachments = uploaded_files('attachments')
    if attachments:
        data['attachments'] = attachments

    with get_controller().mutate() as state:
        state.assignments = reducers.add_assignment(state.assignments, data)
        created = state.assignments[0]
    current_app.logger.info("Teacher %s created assignment %s", teacher.id, created.id)
    return jsonify(assignment=created.to_json()), 201


@routes.route('/api/assignments/<assignment_id>', methods=['PATCH'])
@role_required(Role.TEACHER)
def edit_assignment(teacher, assignment_id):
    data = payload()
    for key in ('teacherId', 'teacher_id', 'teacherName', 'teacher_name'):
        data.pop(key, None)
    with get_controller().mutate() as state:
        _, denied = _owned(teacher, assignment_id, state.assignments)
        if denied:
            return denied
        state.assignments = reducers.update_assignment(state.assignments, assignment_id, data)
    return jsonify(assignments=dump(reducers.assignments_for(teacher, state.assignments)))


@routes.route('/api/assignments/<assignment_id>', methods=['DELETE'])
@role_required(Role.TEACHER, Role.ADMIN)
def remove_assignment(user, assignment_id):
    with get_controller().mutate() as state:
        _, denied = _owned(user, assignment_id, state.assignments)
        if denied:
            return denied
        state.assignments, state.submissions = reducers.delete_assignment(
            state.assignments, state.submissions, assignment_id)
    current_app.logger.info("User %s deleted assignment %s", user.id, assignment_id)
    return jsonify(assignments=dump(reducers.assignments_for(user, state.assignments)))


# --- STUDENT ROUTES ---
@routes.route('/api/submissions', methods=['POST'])
@role_required(Role.STUDENT)
def submit(student):
    data = payload()
    files = uploaded_files('files') or data.get('files') or []
    now = datetime.now(timezone.utc)
    with get_controller().mutate() as state:
        assignment = next((a for a in state.assignments if a.id == data.get('assignmentId')), None)
        if assignment is None:
            return jsonify(error="Unknown assignment"), 404
        if assignment.section is not student.section:
            return jsonify(error="Assignment is not for your section"), 403
        state.submissions = reducers.add_submission(state.submissions, {
            'assignmentId': assignment.id,
            'studentId': student.id,
            'studentName': student.name,
            'files': files,
            'textResponse': data.get('textResponse'),
            'status': reducers.submission_status(assignment, now),
        }, now=now)
        created = state.submissions[0]
    return jsonify(submission=created.to_json()), 201
