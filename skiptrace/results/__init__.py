"""Saved search results: listing, detail and CSV export."""

from flask import Blueprint

results_bp = Blueprint('results', __name__)

from skiptrace.results import routes
