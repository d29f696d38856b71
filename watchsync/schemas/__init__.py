"""
Schema exports for the application.
"""
from .sync import BaseSchema, ChannelOut, CycleSummaryOut, FailedActionOut
