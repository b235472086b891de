"""Dagger pipeline for the greeting e2e runner."""

from .main import GreetingE2eCi as GreetingE2eCi
