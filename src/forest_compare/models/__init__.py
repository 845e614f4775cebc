"""Random Forest backends (scikit-learn and xgboost) and their trainers."""
