"""Health-monitoring alert and adherence engine.

This package contains the decision logic for vital-sign alerts and medication
adherence, isolated from transport and persistence for easy testing and reasoning.
"""
