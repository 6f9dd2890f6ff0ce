"""Quizzes, mini-games and the attempt lifecycle that scores them."""
