"""Service layer modules.

Import service modules (not individual functions) for cleaner access:

    from practice_growth.services import referral_service
"""
