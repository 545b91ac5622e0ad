"""
Flask extension singletons.

Created here without an app so models, blueprints and the CLI can import them
without circular imports; create_app() binds them with init_app().
"""


from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager

db = SQLAlchemy()
migrate = Migrate()
# Bearer-token auth only: see security.load_user_from_request
login_manager = LoginManager()
