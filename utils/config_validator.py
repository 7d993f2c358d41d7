"""
Production configuration validation
Ensures required environment variables are present and sane
"""
import os
import logging
from typing import Dict, List, Tuple, Any

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = 'sqlite:///transport_payroll.db'

def validate_flask_config() -> Tuple[bool, List[str]]:
    """
    Validate Flask and JWT secrets.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    session_secret = os.getenv('SESSION_SECRET')
    if not session_secret:
        issues.append("Missing SESSION_SECRET environment variable")
    elif len(session_secret) < 32:
        issues.append("SESSION_SECRET should be at least 32 characters for security")

    jwt_secret = os.getenv('JWT_SECRET_KEY')
    if jwt_secret is not None and len(jwt_secret) < 32:
        issues.append("JWT_SECRET_KEY should be at least 32 characters for security")

    debug_mode = os.getenv('DEBUG', 'False').lower()
    if debug_mode in ('true', '1', 'yes'):
        issues.append("DEBUG mode is enabled - should be disabled in production")

    return len(issues) == 0, issues

def validate_database_config() -> Tuple[bool, List[str]]:
    """
    Validate DATABASE_URL.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []
    database_url = os.getenv('DATABASE_URL') or DEFAULT_DATABASE_URL

    if database_url.startswith('sqlite'):
        issues.append("SQLite database in use - configure PostgreSQL via DATABASE_URL for production")
    elif not database_url.startswith(('postgresql://', 'postgres://', 'postgresql+psycopg2://')):
        issues.append("DATABASE_URL must be a PostgreSQL or SQLite URL")

    return len(issues) == 0, issues

def validate_upload_config() -> Tuple[bool, List[str]]:
    """
    Validate attachment storage settings.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    max_upload = os.getenv('MAX_UPLOAD_MB', '5')
    try:
        if int(max_upload) <= 0:
            issues.append("MAX_UPLOAD_MB must be a positive integer")
    except ValueError:
        issues.append(f"MAX_UPLOAD_MB is not an integer: {max_upload!r}")

    upload_folder = os.getenv('UPLOAD_FOLDER', 'uploads')
    if not upload_folder.strip():
        issues.append("UPLOAD_FOLDER must not be empty")

    return len(issues) == 0, issues

def check_production_readiness() -> Dict[str, Any]:
    """
    Comprehensive check of production readiness.

    Returns:
        dict: Status information including issues and recommendations
    """
    debug_mode = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

    flask_valid, flask_issues = validate_flask_config()
    database_valid, database_issues = validate_database_config()
    upload_valid, upload_issues = validate_upload_config()

    all_issues = flask_issues + database_issues + upload_issues
    is_production_ready = bool(len(all_issues) == 0 and not debug_mode)

    result = {
        'production_ready': is_production_ready,
        'debug_mode': debug_mode,
        'flask_configured': flask_valid,
        'database_configured': database_valid,
        'uploads_configured': upload_valid,
        'issues': all_issues,
        'recommendations': []
    }

    if debug_mode:
        result['recommendations'].append("Disable DEBUG mode for production deployment")

    if not database_valid:
        result['recommendations'].append("Point DATABASE_URL at PostgreSQL")

    if not is_production_ready:
        result['recommendations'].append("Address configuration issues before deploying to production")

    if is_production_ready:
        logger.info("CONFIG: Production readiness check PASSED")
    else:
        logger.warning(f"CONFIG: Production readiness check FAILED - Issues: {len(all_issues)}")
        for issue in all_issues:
            logger.warning(f"CONFIG: Issue - {issue}")

    return result
