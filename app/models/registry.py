"""
Model Registry - Centralized model access using Flask extension pattern

Routes and background jobs look models up here instead of importing
the factory-built classes directly.

Usage:
    from app.models import get_models

    def list_conflicts():
        models = get_models()
        conflicts = db.session.query(models['DetectedConflict']).all()
"""
from flask import current_app
from typing import Dict, Any, Optional


class ModelRegistry:
    """Flask extension holding the model classes built by init_models()"""

    def __init__(self, app=None):
        self.models: Dict[str, Any] = {}
        if app:
            self.init_app(app)

    def init_app(self, app):
        app.extensions['models'] = self

    def register(self, models_dict: Dict[str, Any]):
        """
        Register all models with the registry

        Args:
            models_dict: Dictionary mapping model names to model classes
        """
        self.models = models_dict

    def get(self, model_name: str) -> Optional[Any]:
        return self.models.get(model_name)

    def __getitem__(self, model_name: str) -> Any:
        return self.models[model_name]

    def all(self) -> Dict[str, Any]:
        return self.models.copy()


# Global instance
model_registry = ModelRegistry()


def get_models() -> Dict[str, Any]:
    """
    Get all registered models from the current app context

    Returns:
        Dictionary containing all registered models

    Raises:
        RuntimeError: If called outside application context or before setup
    """
    if 'models' not in current_app.extensions:
        raise RuntimeError(
            "ModelRegistry not initialized. "
            "Ensure model_registry.init_app(app) is called during app setup."
        )

    return current_app.extensions['models'].models


def get_db():
    """Get the SQLAlchemy instance bound to the current app"""
    return current_app.extensions['sqlalchemy']
