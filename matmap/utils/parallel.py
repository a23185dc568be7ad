# matmap/utils/parallel.py
import multiprocessing as mp
import numpy as np
from functools import partial
from typing import Any, Callable, Dict, List, Optional
import logging
from tqdm import tqdm

logger = logging.getLogger(__name__)

# Per-process arguments installed by the pool initializer
_worker_context: Dict[str, Any] = {}


def split_chunks(n_items: int, chunk_size: int) -> List[slice]:
    """Split a range of n_items into consecutive slices of at most chunk_size"""
    if chunk_size < 1:
        raise ValueError(f"Invalid chunk size: {chunk_size}")
    return [
        slice(start, min(start + chunk_size, n_items))
        for start in range(0, n_items, chunk_size)
    ]


def _init_worker(context: Dict[str, Any]) -> None:
    _worker_context.clear()
    _worker_context.update(context)


def _apply_with_context(func: Callable[..., np.ndarray], chunk: np.ndarray) -> np.ndarray:
    return func(chunk, **_worker_context)


def parallel_map_chunks(
    func: Callable[..., np.ndarray],
    data: np.ndarray,
    n_jobs: Optional[int] = 1,
    chunk_size: Optional[int] = None,
    show_progress: bool = False,
    desc: str = "Processing",
    context: Optional[Dict[str, Any]] = None,
) -> np.ndarray:
    """Apply function to row chunks of an array and concatenate the results

    Rows are independent, so the result does not depend on n_jobs or
    chunk_size. func is called as func(chunk, **context); in pool mode the
    context is sent once to each worker rather than with every chunk, so
    large read-only inputs belong there. func must be a picklable
    module-level function when n_jobs > 1.

    Args:
        func: Function mapping an (m, ...) chunk to an (m, ...) result
        data: Input array, chunked along axis 0
        n_jobs: Number of worker processes (None = all cores, 1 = serial)
        chunk_size: Rows per chunk (None = auto-determine)
        show_progress: Show a tqdm progress bar over chunks
        desc: Progress bar label
        context: Keyword arguments shared by every call of func

    Returns:
        Concatenated results in input order
    """
    if n_jobs is None:
        n_jobs = mp.cpu_count()
    if n_jobs < 1:
        raise ValueError(f"Invalid number of jobs: {n_jobs}")
    context = context or {}

    n_rows = data.shape[0]
    if n_rows == 0:
        return data.copy()
    if chunk_size is None:
        chunk_size = max(1, -(-n_rows // (n_jobs * 4)))

    chunks = [data[s] for s in split_chunks(n_rows, chunk_size)]
    logger.debug(f"Mapping {len(chunks)} chunks of up to {chunk_size} rows")

    if n_jobs == 1 or len(chunks) == 1:
        results = [
            func(chunk, **context)
            for chunk in tqdm(chunks, desc=desc, disable=not show_progress)
        ]
    else:
        with mp.Pool(
            processes=min(n_jobs, len(chunks)),
            initializer=_init_worker,
            initargs=(context,),
        ) as pool:
            results = list(
                tqdm(
                    pool.imap(partial(_apply_with_context, func), chunks),
                    total=len(chunks),
                    desc=desc,
                    disable=not show_progress,
                )
            )

    return np.concatenate(results)
