import configparser
import os

CONFIG_FILE = "config.ini"


def get_config():
    config = configparser.ConfigParser()
    if os.path.exists(CONFIG_FILE):
        config.read(CONFIG_FILE)
    return config


def save_config(config):
    with open(CONFIG_FILE, "w") as configfile:
        config.write(configfile)


def get_insecure() -> bool:
    return get_config()["DEFAULT"].getboolean("insecure", fallback=False)
