"""
Database initialization script for the portfolio application.
Run this script to create the projects table on the configured data service.
"""
import os
import sys
from pathlib import Path

# Add parent directory to path to import modules
sys.path.insert(0, str(Path(__file__).parent))

from flask import Flask
from sqlalchemy import inspect

from config import config, data_service_uri
from models import db, Project  # noqa: F401  (registers the table)


def init_database(app_config='default', overrides=None):
    """
    Initialize the database by creating all tables.

    Args:
        app_config: Configuration to use ('development', 'production', or 'default')
        overrides: Optional config values applied on top of the chosen configuration

    Returns:
        The list of table names present after creation.
    """
    app = Flask(__name__)
    app.config.from_object(config[app_config])
    if overrides:
        app.config.update(overrides)

    uri = data_service_uri(app.config.get('DATA_SERVICE_URL'), app.config.get('DATA_SERVICE_KEY'))
    if not uri:
        raise RuntimeError('PORTFOLIO_DATA_URL and PORTFOLIO_DATA_KEY must both be set.')
    app.config['SQLALCHEMY_DATABASE_URI'] = uri

    # Initialize database with app
    db.init_app(app)

    with app.app_context():
        print("Creating database tables...")
        print(f"Database URL: {db.engine.url.render_as_string(hide_password=True)}")

        # Create all tables
        db.create_all()

        print("All tables created successfully!")

        # Display created tables
        tables = inspect(db.engine).get_table_names()
        print(f"\nCreated {len(tables)} tables:")
        for table in tables:
            print(f"  - {table}")

    return tables


if __name__ == '__main__':
    # Determine environment
    env = os.environ.get('FLASK_ENV', 'development')

    print("=" * 60)
    print("Portfolio - Database Initialization")
    print("=" * 60)
    print(f"Environment: {env}")
    print()

    try:
        init_database(env)
        print("\nDatabase initialization complete!")
        print("\nNext steps:")
        print("  1. Set PORTFOLIO_OWNER_ID to the identity shown in the logs on first visit")
        print("  2. Run 'python app.py' to start the application")
    except Exception as e:
        print(f"\nError initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
