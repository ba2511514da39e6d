"""Metadata generation — from decorated controller classes to Metadata IR."""
