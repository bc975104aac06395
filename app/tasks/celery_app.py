from celery import Celery
import os
from dotenv import load_dotenv

load_dotenv()

REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

celery_app = Celery(
    'classroom_tasks',
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=['app.tasks.email']
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_time_limit=60,
    task_soft_time_limit=45,
    worker_prefetch_multiplier=1,
    # inline execution for local runs and tests
    task_always_eager=os.getenv('CELERY_TASK_ALWAYS_EAGER', '').lower() in ('1', 'true', 'yes'),
    task_routes={
        'send_email': {'queue': 'email'},
    },
)

if __name__ == '__main__':
    celery_app.start()
