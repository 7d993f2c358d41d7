import os
from datetime import datetime
import pytz

DEFAULT_TIMEZONE = 'Asia/Ho_Chi_Minh'

def get_business_timezone():
    """Business timezone used for trip codes and stored timestamps"""
    return pytz.timezone(os.environ.get('APP_TIMEZONE', DEFAULT_TIMEZONE))

def get_local_time_naive():
    """Get current business-local time as naive datetime for database storage"""
    return datetime.now(get_business_timezone()).replace(tzinfo=None)
