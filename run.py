"""
Entry point for Flask.

Usage (from project root):

    export FLASK_APP=run.py
    export FLASK_DEBUG=1
    flask run

or:

    flask --app run.py --debug run

"""

from amc_manager import create_app

# WSGI application object for Flask to run. When you run `flask run`, Flask looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # For direct `python run.py` usage (dev only) - use `flask run` or a WSGI server instead.
    app.run(debug=True)
