"""Tutor marketplace core: search, portfolios and session booking"""
from .marketplace import TutorMarketplace
from .identity_gateway import IdentityGateway

__all__ = ["TutorMarketplace", "IdentityGateway"]
