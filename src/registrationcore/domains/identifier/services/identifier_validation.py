"""
Identifier format and check-digit validation
"""

import logging
import re
from typing import Dict

from ...patient.models.patient import PatientIdentifierType
from ....core.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)


class LuhnCheckDigitValidator:
    """
    Luhn mod-10 check digit over [0-9A-Z], written as <identifier>-<digit>

    Letters contribute their character code minus 48, so alphanumeric
    identifiers are accepted.
    """

    name = "luhn"
    allowed = re.compile(r"^[0-9A-Z]+$")

    def compute_check_digit(self, undecorated: str) -> int:
        value = undecorated.strip().upper()
        if not value or not self.allowed.match(value):
            raise ValidationError(f"Identifier '{undecorated}' contains invalid characters")

        total = 0
        for position, char in enumerate(reversed(value)):
            digit = ord(char) - 48
            if position % 2 == 0:
                digit *= 2
                digit = digit // 10 + digit % 10
            total += digit
        return (10 - total % 10) % 10

    def get_valid_identifier(self, undecorated: str) -> str:
        return f"{undecorated}-{self.compute_check_digit(undecorated)}"

    def is_valid(self, identifier: str) -> bool:
        undecorated, sep, check = identifier.rpartition("-")
        if not sep or len(check) != 1 or not check.isdigit():
            return False
        try:
            return self.compute_check_digit(undecorated) == int(check)
        except ValidationError:
            return False


CHECK_DIGIT_VALIDATORS: Dict[str, LuhnCheckDigitValidator] = {
    LuhnCheckDigitValidator.name: LuhnCheckDigitValidator()
}


def get_check_digit_validator(name: str) -> LuhnCheckDigitValidator:
    validator = CHECK_DIGIT_VALIDATORS.get(name.lower())
    if validator is None:
        raise ConfigurationError(f"Unknown identifier validator: {name}")
    return validator


def validate_identifier(identifier: str, identifier_type: PatientIdentifierType) -> None:
    """
    Validate an identifier against its type's format rules

    Raises:
        ValidationError: identifier is blank, does not match the type's
            format, or fails the type's check digit
        ConfigurationError: the type names an unknown check-digit validator
    """
    if identifier_type is None:
        raise ValidationError("Identifier type is required to validate an identifier")
    if identifier is None or not identifier.strip():
        raise ValidationError("Identifier cannot be blank")
    if identifier != identifier.strip():
        raise ValidationError(f"Identifier '{identifier}' has leading or trailing whitespace")

    if identifier_type.format and not re.fullmatch(identifier_type.format, identifier):
        description = identifier_type.format_description or identifier_type.format
        raise ValidationError(
            f"Identifier '{identifier}' does not match the format of {identifier_type.name}: {description}"
        )

    if identifier_type.validator:
        validator = get_check_digit_validator(identifier_type.validator)
        if not validator.is_valid(identifier):
            raise ValidationError(f"Identifier '{identifier}' failed the {validator.name} check digit")

    logger.debug(f"Identifier {identifier} is valid for type {identifier_type.name}")
