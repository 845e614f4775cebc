from .model_trainer import ModelTrainer, SklearnForestBackend

__all__ = ["ModelTrainer", "SklearnForestBackend"]
