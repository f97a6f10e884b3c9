"""Command-line front end for the Pulse state tracker."""
