from .main import main_bp
from .forms import forms_bp
from .templates import templates_bp


def register_blueprints(app):
    app.register_blueprint(main_bp)
    app.register_blueprint(forms_bp)
    app.register_blueprint(templates_bp)
