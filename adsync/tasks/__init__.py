# Sync jobs and scheduler
