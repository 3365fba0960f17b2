import enum

from core.exceptions import InvalidInputError


# ============================================================================
# ENUMS
# ============================================================================

class SupportedCountry(str, enum.Enum):
    """Countries the pollution API serves"""
    PL = "PL"
    DE = "DE"
    ES = "ES"
    FR = "FR"

    @property
    def label(self) -> str:
        """English name, used in responses and Wikipedia disambiguation"""
        return COUNTRY_LABELS[self]

    @classmethod
    def parse(cls, code) -> "SupportedCountry":
        value = str(code or "").strip().upper()
        try:
            return cls(value)
        except ValueError:
            raise InvalidInputError(
                f"Invalid or missing country. Use one of: {', '.join(c.value for c in cls)}",
                error_code="invalid-country",
                context={"country": code},
            )


COUNTRY_LABELS = {
    SupportedCountry.PL: "Poland",
    SupportedCountry.DE: "Germany",
    SupportedCountry.ES: "Spain",
    SupportedCountry.FR: "France",
}


class Verdict(str, enum.Enum):
    """Classifier outcome for a raw record name"""
    ACCEPT = "accept"
    ACCEPT_CLEANED = "accept-cleaned"
    DISCARD = "discard"
