"""Core domain package for chat-organizer.

Core contains filter matching, action dispatch, and the operator command
interpreter without any transport or storage-specific code, keeping the
business logic portable.
"""
