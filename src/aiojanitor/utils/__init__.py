"""Various utilities that are needed by the resource tracker."""
