import logging
import os

from flask import Flask
from flask_caching import Cache
from flask_mail import Mail
from flask_sqlalchemy import SQLAlchemy

from config import Config

db = SQLAlchemy()
cache = Cache()
mail = Mail()


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]), exist_ok=True)

    # Init extensions
    db.init_app(app)
    cache.init_app(app)
    mail.init_app(app)

    # Blueprint
    from parkspot.routes import bp
    app.register_blueprint(bp)

    with app.app_context():
        from parkspot import models  # noqa: F401  (register tables)
        db.create_all()

    return app
