"""
Password rules for CRM staff accounts
"""

import re
from typing import Optional, Tuple

class PasswordValidator:
    """Checks passwords set by super admins for agents and operations staff"""

    MIN_LENGTH = 8
    MAX_LENGTH = 72  # bcrypt ignores bytes past 72

    @staticmethod
    def validate(password: str, phone: Optional[str] = None) -> Tuple[bool, str]:
        """
        Returns:
            (is_valid, error_message)
        """
        if not password:
            return False, "Password is required"

        if len(password) < PasswordValidator.MIN_LENGTH:
            return False, f"Password must be at least {PasswordValidator.MIN_LENGTH} characters long"

        if len(password.encode("utf-8")) > PasswordValidator.MAX_LENGTH:
            return False, f"Password must not exceed {PasswordValidator.MAX_LENGTH} bytes"

        if not re.search(r'[A-Za-z]', password):
            return False, "Password must contain at least one letter"

        if not re.search(r'\d', password):
            return False, "Password must contain at least one number"

        # Agents log in with their phone; it must not double as the password
        if phone and phone in password:
            return False, "Password must not contain the phone number"

        return True, ""

def validate_password(password: str, phone: Optional[str] = None) -> None:
    """
    Raises:
        ValueError: If password doesn't meet requirements
    """
    is_valid, error_message = PasswordValidator.validate(password, phone)
    if not is_valid:
        raise ValueError(error_message)
