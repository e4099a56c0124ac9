class TrainStatsConfig:

    def __init__(self):
        self.enable_logging: bool = False
        self.logs_dir: str = "./logs"


config = TrainStatsConfig()
