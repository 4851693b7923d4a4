from celery import Celery

# Create Celery app
celery = Celery("nexusflow")

# Load configuration from nexusflow.config.celeryconfig module
celery.config_from_object("nexusflow.config.celeryconfig")
