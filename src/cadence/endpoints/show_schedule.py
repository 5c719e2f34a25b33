#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging
from importlib import resources
from pathlib import Path
from typing import Any

import hydra
from hydra.utils import instantiate
from omegaconf import DictConfig, OmegaConf

from cadence.api.handlers import ClinicService
from cadence.constants import CONFIGS_ROOT
from cadence.display import display_schedule
from cadence.scheduling.expansion import ExpansionSettings
from cadence.scheduling.time_utils import (
    calendar_window,
    format_instant,
    now_,
    parse_instant,
)
from cadence.storage.clinic_database import ClinicDatabase
from cadence.storage.repository import DataFramePatientRepository
from cadence.storage.seed import seed_database

logger = logging.getLogger(__name__)


def get_config_path() -> str:
    return str(resources.files(f"{CONFIGS_ROOT}.schedule") / ".")


def load_database(snapshot: str | None) -> ClinicDatabase:
    if snapshot and Path(snapshot).exists():
        return ClinicDatabase.load(snapshot)
    logger.info("No snapshot found, starting from the demo patients")
    return seed_database()


def query_window(cfg: DictConfig) -> tuple[str, str]:
    if cfg.from_date and cfg.to_date:
        return cfg.from_date, cfg.to_date
    reference = parse_instant(cfg.reference) if cfg.reference else now_()
    window = calendar_window(cfg.view, reference)
    return format_instant(window.start), format_instant(window.end)


def build_schedule(cfg: DictConfig, database: ClinicDatabase) -> dict[str, Any]:
    """Run the schedule query described by `cfg` against `database`."""
    settings: ExpansionSettings = instantiate(cfg.expansion)
    service = ClinicService(DataFramePatientRepository(database), settings=settings)
    from_date, to_date = query_window(cfg)
    logger.info(f"Querying appointments from {from_date} to {to_date}")
    if cfg.patient_id:
        result = service.appointments_by_patient(cfg.patient_id, from_date, to_date)
    else:
        result = service.all_appointments(from_date, to_date)
    return {**result, "fromDate": from_date, "toDate": to_date}


@hydra.main(config_name="default", config_path=get_config_path(), version_base=None)
def show_schedule(cfg: DictConfig):
    if cfg.debug:
        logger.info(OmegaConf.to_yaml(cfg, resolve=True))
    database = load_database(cfg.snapshot)
    schedule = build_schedule(cfg, database)
    display_schedule(
        schedule["appointments"],
        title=f"{schedule['fromDate']} - {schedule['toDate']}",
    )
    logger.info(f"{schedule['total']} appointments in window")
    if cfg.save_snapshot:
        if not cfg.snapshot:
            logger.warning("save_snapshot is set but no snapshot path was given")
            return
        database.save(cfg.snapshot)


if __name__ == "__main__":
    show_schedule()
