import os

# Must run before anything imports jornada.config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCAL_TIMEZONE", "UTC")
os.environ.setdefault("CLASSIFICATION_POLICY", "rotation")
