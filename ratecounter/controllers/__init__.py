from ratecounter.controllers.counter import CounterController, format_count

__all__ = ["CounterController", "format_count"]
