class BatchLog:
    """
    Diagnostics sink for a batching run.

    With log_type "terminal" each message is printed and, if a log file is set, appended to it.
    With log_type "file" messages only go to the log file.
    """

    LOG_TYPES = ("terminal", "file")

    def __init__(self, log_file=None, log_type="terminal"):
        if log_type not in self.LOG_TYPES:
            raise ValueError(f"Unknown log type: {log_type}")
        if log_type == "file" and not log_file:
            raise ValueError("log_type 'file' needs a log file")
        self.log_file = log_file
        self.log_type = log_type

    def __call__(self, message):
        if self.log_type == "terminal":
            print(message)
        if self.log_file:
            with open(self.log_file, 'a') as f:
                f.write(message + "\n")
