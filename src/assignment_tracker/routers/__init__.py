"""HTTP and WebSocket routes of the assignment tracker."""
