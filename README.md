# arckit

This package provides building blocks for running a fleet of self-hosted CI runners.

## Modules

- **Stable template hashing** (`arckit.hashing`)
  - `dump_object` renders nested values deterministically, with mapping keys sorted.
  - `fnv32a` is 32-bit FNV-1a.
  - `safe_encode_string` maps each byte of a string onto a vowel-free alphabet.
  - `fnv_hash_string_objects` hashes the dump of its last argument into a short, label-safe string.
- **Labels and selectors** (`arckit.labels`)
  - `LabelSelector` and `LabelSelectorRequirement` describe selectors.
  - `filter_labels`, `clone_and_add_label` and `clone_selector_and_add_label` return new maps and selectors. They leave their inputs unchanged.
  - When the key is empty, `clone_and_add_label` and `clone_selector_and_add_label` return the input object itself.
- **Recurring schedules** (`arckit.schedule`)
  - `match_schedule(now, start_time, end_time, recurrence_rule)` returns the active `Period` and the next upcoming one. Either may be `None`.
  - A `RecurrenceRule` has a frequency of `"Daily"`, `"Weekly"`, `"Monthly"`, `"Yearly"` or `""` (one-time), and an optional `until_time`.
- **In-memory object store** (`arckit.store`)
  - `ObjectStore` keeps `Resource` objects by kind, namespace and name.
  - `get`, `list`, `create`, `update` and `delete` hand out independent copies.
  - `create` generates a name from `generate_name` when the resource has none.
  - A missing object raises `NotFoundError`.
- **Runner deployments** (`arckit.deployment`)
  - `RunnerDeploymentReconciler(store).reconcile(namespace, name)` rolls a `RunnerDeployment` out to `RunnerReplicaSet`s, keyed by a template hash from `compute_hash`.
  - Once the newest set is fully ready, it scales old sets down to zero and then deletes them. Each deletion is recorded in `events`.
  - It returns a `ReconcileResult` that says whether and when to run again.
- **Volume hand-off** (`arckit.volumes`)
  - `sync_volumes` labels each claim with the stateful set that owns it.
  - `sync_pvc` marks the bound volume for cleanup and deletes the claim once its stateful set is gone.
  - `sync_pv` unsets the claim reference of a released, marked volume.
- **Logging** (`arckit.logsetup`)
  - `new_logger(log_level)` accepts `debug`, `info`, `warn`, `error` or an integer from -128 to 127. Anything else raises `ValueError`.
  - `LoggingTransport` wraps an `httpx` transport. It logs every response with its cache marker and remaining rate limit.
- **Fake runner API** (`arckit.fakerunners`)
  - `RunnersList` holds runners in memory. `sync` and `add_offline` fill it from runner names.
  - `serve()` starts a local HTTP server that answers list and remove requests. The server has a `url` and can be used as a context manager.
- **Release signing** (`arckit.signrel`)
  - `ReleaseAssets` downloads release assets, signs them with `gpg` and uploads the signatures.
  - The `signrel` command exposes it; see [Signing release assets](#signing-release-assets).

## Installing

```
pip install arckit
```

To run the test suite:

```
pip install "arckit[test]"
pytest
```

## Schedules

```python
from datetime import datetime, timezone
from arckit.schedule import RecurrenceRule, match_schedule

start = datetime(2021, 5, 1, tzinfo=timezone.utc)
end = datetime(2021, 5, 3, tzinfo=timezone.utc)
now = datetime(2021, 5, 8, tzinfo=timezone.utc)

active, upcoming = match_schedule(now, start, end, RecurrenceRule("Weekly"))
print(active)    # 2021-05-08T00:00:00Z-2021-05-10T00:00:00Z
print(upcoming)  # 2021-05-15T00:00:00Z-2021-05-17T00:00:00Z
```

`match_schedule` raises `ValueError` in two cases:

- the frequency is unknown;
- the window is longer than one recurrence interval.

## Labels

```python
from arckit.labels import clone_and_add_label, filter_labels

labels = clone_and_add_label({"foo": "bar"}, "runner-template-hash", "abc")
filter_labels(labels, "runner-template-hash")  # {"foo": "bar"}
```

## Signing release assets

The `signrel` command works on the releases of the project repository.

To print the recent releases as raw JSON:

```
signrel tags
```

To sign a release:

```
TAG=v0.1.0 signrel sign
```

For the release named by `TAG`, `signrel sign` does the following:

1. Downloads every asset that is not already a `.asc` file into `downloads/<tag>/`.
2. Makes a detached armoured signature of each asset with `gpg`, unless one already exists.
3. Uploads the signature to the release.

If the server reports that an upload is already present, that upload is skipped.

Environment variables:

- `GITHUB_TOKEN` is used for API authorisation when set.
- `SIGNREL_PASSWORD` is the passphrase passed to `gpg`.

Exit status:

- Invalid usage exits with status 2.
- A failed request or a failed signature exits with status 1.

## What this package does not do

- It does not talk to a real cluster. The reconcilers and volume helpers work against the in-memory `ObjectStore`.
- It has no long-running controller process or command that watches resources.
- It does not export rate-limit or other metrics. `LoggingTransport` only writes the rate-limit headers to the log.