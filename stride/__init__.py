import os
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()

DEFAULT_CACHE_NAME = 'mustang-stride-v3'


def create_app(test_config=None):
    app = Flask(__name__)

    # 1. Secret Key
    app.secret_key = os.environ.get('SECRET_KEY', 'dev_secret_key_fallback')

    # 2. Database Configuration
    # Prioritize 'DATABASE_URL' from environment, fall back to a local SQLite file
    database_url = os.environ.get('DATABASE_URL')

    if database_url:
        # SQLAlchemy wants 'postgresql://' instead of 'postgres://'
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    else:
        app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///stride.db'

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # 3. AI + offline cache settings
    app.config['GROQ_API_KEY'] = os.environ.get('GROQ_API_KEY')
    app.config['CACHE_NAME'] = os.environ.get('CACHE_NAME', DEFAULT_CACHE_NAME)
    app.config['OFFLINE_BASE_URL'] = os.environ.get('OFFLINE_BASE_URL', 'http://127.0.0.1:5000')
    app.config['SEED_ADMIN'] = True
    app.config['HYDRATE_ON_START'] = True

    if test_config:
        app.config.update(test_config)

    # 4. Initialize Plugins
    db.init_app(app)
    migrate.init_app(app, db)

    # 5. Register Blueprints (Routes) and CLI commands
    from stride.routes import routes
    app.register_blueprint(routes)

    from stride.commands import offline_cli
    app.cli.add_command(offline_cli)

    # 6. Create Database Tables (if they don't exist)
    from stride import models  # noqa: F401
    with app.app_context():
        db.create_all()

    # 7. Application state: hydrate from the store, then persist on change
    from stride.state import PersistenceController, SEED_USERS
    controller = PersistenceController(app, initial_users=SEED_USERS if app.config['SEED_ADMIN'] else ())
    app.extensions['stride'] = controller

    if app.config['HYDRATE_ON_START']:
        controller.init()

    return app
