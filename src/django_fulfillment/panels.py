"""Static metadata for diagnostic test codes."""

# Collections for these tests need an overnight fast.
FASTING_REQUIRED_TESTS = frozenset({
    "fasting_glucose",
    "lipid_panel",
    "hba1c",
    "insulin",
})


def requires_fasting(test_codes) -> bool:
    """True if any test code in the panel needs the patient to fast."""
    return any(str(code).strip().lower() in FASTING_REQUIRED_TESTS for code in test_codes or [])
