"""
Production Module
Flask Blueprint for manufacturing jobs, their production steps and the
system update feed polled by operator terminals.
"""
from flask import Blueprint

production_bp = Blueprint("production", __name__)

from tracker.production import routes
