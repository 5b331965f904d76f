# ==============================================================================
# app/__init__.py
# ------------------------------------------------------------------------------
# Application factory for creating and configuring the Flask app instance.
# ==============================================================================

import os
import logging
import click
from flask import Flask
from config import Config
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Initialize extensions globally to be accessible by other modules
db = SQLAlchemy()
migrate = Migrate()

def create_app(config_class=Config):
    """
    Application factory function. Creates and configures the Flask application.

    Args:
        config_class (class): The configuration class to use.

    Returns:
        Flask: The configured Flask application instance.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    # Configure logging
    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    # Ensure the instance folder exists for the SQLite database
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize extensions with the application instance
    db.init_app(app)
    migrate.init_app(app, db)

    # Register blueprints with the application
    from app.main import bp as main_bp
    app.register_blueprint(main_bp)

    @app.cli.command("seed")
    def seed():
        """Seeds the database with default settings, companies and salary rules."""
        from app.seed import seed_data
        seed_data()
        app.logger.info("Database has been seeded with default values.")

    @app.cli.command("generate-plan")
    @click.argument("month")
    def generate_plan_command(month):
        """Generates (or regenerates) the KPI plan for MONTH (YYYY-MM)."""
        from app.engine.periods import parse_month
        from app.engine.store import regenerate_plan
        try:
            target = parse_month(month)
        except ValueError:
            raise click.BadParameter(f"{month!r} is not a YYYY-MM month.")
        rows = regenerate_plan(target)
        locked = sum(1 for row in rows if row.locked)
        click.echo(f"Plan for {month}: {len(rows)} rows ({locked} locked).")

    app.logger.info('KPI planner startup complete')

    return app
