from .model_trainer import ModelTrainer, XGBoostForestBackend

__all__ = ["ModelTrainer", "XGBoostForestBackend"]
