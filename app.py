import logging
import os
from functools import wraps

import click
from flask import Flask, Response, request, jsonify
from flask_login import LoginManager, login_user, logout_user, login_required, current_user
from werkzeug.exceptions import HTTPException

import bulk_upload
import part_service
import reports
import request_service
import store
import user_service
from errors import MustGoError, AuthenticationRequired, AuthorizationDenied, ValidationFailed
from models import db, User
from role_policy import Actor, Role, is_approved

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret")
db_url = os.environ.get("DATABASE_URL", "sqlite:///mgtrako.sqlite3")
app.config["SQLALCHEMY_DATABASE_URI"] = db_url
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
app.config["APP_NAME"] = os.environ.get("APP_NAME", "MG Trako")
app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_UPLOAD_MB", "16")) * 1024 * 1024
db.init_app(app)

# Body keys that mark a PATCH as a full edit rather than a status/note update
EDIT_KEYS = ("shipmentNumber", "plant", "trailers", "palletCount", "routeInfo", "additionalNotes")

# ---------- Flask-Login Configuration ----------
login_manager = LoginManager()
login_manager.init_app(app)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    raise AuthenticationRequired()


# ---------- Error Handlers ----------
@app.errorhandler(MustGoError)
def handle_mustgo_error(error):
    if error.status_code >= 500:
        app.logger.error("Request failed: %s", error.message)
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(HTTPException)
def handle_http_error(error):
    return jsonify({"error": error.description}), error.code


# ---------- Utility ----------
def current_actor():
    return Actor.from_user(current_user)


def role_required(*allowed_roles):
    """Decorator restricting an API route to approved users, optionally only the given roles"""
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            actor = current_actor()
            if not is_approved(actor):
                raise AuthorizationDenied("Account pending approval")
            if allowed_roles and actor.role not in allowed_roles:
                raise AuthorizationDenied()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed.single("body", "Invalid JSON payload")
    return data


def flag(name):
    return request.args.get(name, "").strip().lower() in ("1", "true", "yes")


# ---------- Authentication Routes ----------
@app.route("/api/auth/register", methods=["POST"])
def register():
    data = json_body()
    user = user_service.register(data.get("name"), data.get("email"), data.get("password"))
    return jsonify({
        "success": True,
        "message": "User created successfully",
        "userId": user.id,
    }), 201


@app.route("/api/auth/login", methods=["POST"])
def login():
    data = json_body()
    user = user_service.authenticate(data.get("email"), data.get("password"))
    login_user(user, remember=True)
    return jsonify(user.to_dict())


@app.route("/api/auth/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "You have been logged out."})


@app.route("/api/auth/session")
@login_required
def session_info():
    return jsonify({
        "appName": app.config["APP_NAME"],
        "user": current_user.to_dict(),
        "pending": not is_approved(current_actor()),
    })


# ---------- User Management Routes ----------
@app.route("/api/users")
@role_required(Role.ADMIN)
def users():
    return jsonify([user.to_dict() for user in user_service.list_users(current_actor())])


@app.route("/api/users/role", methods=["PATCH"])
@role_required(Role.ADMIN)
def user_role():
    data = json_body()
    user = user_service.change_role(current_actor(), data.get("userId"), data.get("role"))
    return jsonify(user.to_dict())


# ---------- Request Routes ----------
@app.route("/api/requests")
@role_required()
def requests_list():
    actor = current_actor()
    found = request_service.list_requests(
        actor,
        status=request.args.get("status"),
        search=request.args.get("search"),
        mine=flag("mine"),
        include_deleted=flag("includeDeleted"),
    )
    return jsonify([request_service.present(actor, req, include_logs=False) for req in found])


@app.route("/api/requests", methods=["POST"])
@role_required(Role.ADMIN, Role.CUSTOMER_SERVICE)
def request_create():
    actor = current_actor()
    created = request_service.create_request(actor, json_body())
    return jsonify(request_service.present(actor, created)), 201


@app.route("/api/requests/<int:request_id>")
@role_required()
def request_details(request_id):
    actor = current_actor()
    found = request_service.get_request(actor, request_id)
    return jsonify(request_service.present(actor, found))


@app.route("/api/requests/<int:request_id>", methods=["PATCH"])
@role_required()
def request_update(request_id):
    """Full edit when the body carries request fields, otherwise a status/note update"""
    actor = current_actor()
    data = json_body()
    if any(key in data for key in EDIT_KEYS):
        updated = request_service.edit_request(actor, request_id, data)
    else:
        updated = request_service.update_status(
            actor, request_id, status=data.get("status"), note=data.get("note")
        )
    return jsonify(request_service.present(actor, updated))


@app.route("/api/requests/<int:request_id>", methods=["DELETE"])
@role_required(Role.ADMIN)
def request_delete(request_id):
    actor = current_actor()
    deleted = request_service.soft_delete_request(actor, request_id)
    return jsonify(request_service.present(actor, deleted))


@app.route("/api/requests/<int:request_id>/undelete", methods=["POST"])
@role_required(Role.ADMIN)
def request_undelete(request_id):
    actor = current_actor()
    restored = request_service.restore_request(actor, request_id)
    return jsonify(request_service.present(actor, restored))


@app.route("/api/bulk-upload", methods=["POST"])
@role_required(Role.ADMIN, Role.CUSTOMER_SERVICE)
def bulk_upload_requests():
    f = request.files.get("file")
    result = bulk_upload.upload(
        current_actor(),
        file=f,
        filename=f.filename if f else None,
        text=request.form.get("text"),
        split_criteria=request.form.get("splitCriteria") or "shipment",
    )
    return jsonify(result.to_dict())


# ---------- Parts Catalog Routes ----------
@app.route("/api/parts")
@role_required()
def parts_list():
    parts = part_service.list_parts(current_actor(), search=request.args.get("search"))
    return jsonify([part.to_dict() for part in parts])


@app.route("/api/parts", methods=["POST"])
@role_required(Role.ADMIN, Role.CUSTOMER_SERVICE)
def part_create():
    part = part_service.create_part(current_actor(), json_body())
    return jsonify(part.to_dict()), 201


@app.route("/api/parts", methods=["PUT"])
@role_required(Role.ADMIN, Role.CUSTOMER_SERVICE)
def part_update():
    part = part_service.update_part(current_actor(), json_body())
    return jsonify(part.to_dict())


@app.route("/api/parts/<int:part_id>")
@role_required()
def part_details(part_id):
    return jsonify(part_service.get_part(current_actor(), part_id).to_dict())


@app.route("/api/parts/<int:part_id>", methods=["DELETE"])
@role_required(Role.ADMIN, Role.CUSTOMER_SERVICE)
def part_delete(part_id):
    part_service.delete_part(current_actor(), part_id)
    return jsonify({"message": "Part deleted successfully"})


# ---------- Report Routes ----------
@app.route("/api/reports")
@role_required(Role.ADMIN, Role.REPORT_RUNNER)
def report_summary():
    return jsonify(reports.build_report(current_actor()))


@app.route("/api/reports/requests.csv")
@role_required(Role.ADMIN, Role.REPORT_RUNNER)
def report_requests_csv():
    csv_text = reports.export_requests_csv(current_actor())
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=requests.csv"},
    )


# ---------- CLI for DB ----------
@app.cli.command("init-db")
def init_db():
    db.create_all()
    print("Database initialized.")


@app.cli.command("create-admin")
def create_admin():
    """Create an admin user for the system"""
    import getpass

    print(f"\n=== Create {app.config['APP_NAME']} Administrator ===\n")

    email = input("Enter admin email: ").strip().lower()
    if not email:
        print("Error: Email cannot be empty")
        return

    if store.find_user_by_email(email):
        print(f"Error: User with email '{email}' already exists")
        return

    name = input("Enter full name: ").strip()
    if not name:
        print("Error: Full name cannot be empty")
        return

    password = getpass.getpass("Enter password: ")
    password_confirm = getpass.getpass("Confirm password: ")

    if password != password_confirm:
        print("Error: Passwords do not match")
        return

    if len(password) < user_service.MIN_PASSWORD_LENGTH:
        print(f"Error: Password must be at least {user_service.MIN_PASSWORD_LENGTH} characters")
        return

    store.create_user(name, email, password, role=Role.ADMIN)

    print(f"\n✓ Admin user '{name}' created successfully!")
    print(f"  Email: {email}")
    print("  Role: ADMIN\n")


@app.cli.command("seed-data")
@click.option("--count", default=5, show_default=True, help="Number of requests to generate")
@click.option("--clear", is_flag=True, help="Clear all existing data before seeding")
def seed_data_command(count, clear):
    """Populate the database with demo users and requests"""
    from seed_data import seed

    db.create_all()
    seed(count=count, clear=clear)


if __name__ == "__main__":
    app.run(debug=os.environ.get("FLASK_DEBUG") == "1")
