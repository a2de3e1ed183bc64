"""Grading: derived-score reconciliation and the answer-grading job."""
