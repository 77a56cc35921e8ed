"""Telephony primitives shared by the webhook layer and the call router.

Everything here is pure: number normalization, the client-state token codec
and webhook signature verification. Nothing in this package talks to Telnyx.
"""
