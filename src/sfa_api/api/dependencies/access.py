from sfa_api.services.access import AccessPolicy


def get_access_policy() -> AccessPolicy:
    """Role grants for loyalty actions, overridable in tests."""

    return AccessPolicy.from_settings()
