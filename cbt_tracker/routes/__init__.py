"""HTTP route blueprints for the CBT Mood Tracker."""
