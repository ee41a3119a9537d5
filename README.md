# raidio

`raidio` is a command-line benchmark for block devices and files. It runs
sequential or random reads and writes with a chosen block size, queue depth
and thread count, and appends one result line per run to a log under
`result/`. On a machine with a hardware RAID controller it can also find,
create, initialise and configure a virtual drive through `storcli` or
`storcli64` before the run.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## The `rio` command

```
rio --raid_type <none|hard|soft> --file <path> [--bs <size>] [--rw <type>] ...
```

Examples:

```
rio --raid_type none --file /dev/sda --bs 256K --rw write --size 1G --iodepth 16 --thread_n 4
rio --raid_type hard --file /dev/sda --bs 1024K --rw read --size 1G --iodepth 16 --thread_n 4
rio --raid_type hard --file /dev/sda --size 1G --fk_plot bw
```

Long options take their value as `--opt value` or `--opt=value`, and may be
abbreviated to any unique prefix. Each option also has a one-letter form
(for example `-f`, `-b`, `-r`, `-s`, `-q`, `-t`). `rio --help` prints the
full list. Options are applied in order: `--bs` sets the thread count to 1
for blocks over 128K and to 16 otherwise, and `--rw randread` or
`--rw randwrite` resets the block size to 4K.

### Common options

| Option | Meaning | Default |
| --- | --- | --- |
| `--file` | device or file to test | none |
| `--bs` | block size, with an optional `K`, `M`, `G` or `T` suffix | 1M |
| `--rw` | `read`, `write`, `randread` or `randwrite` | `read` |
| `--size` | total I/O size | 100M |
| `--iodepth` | requests in flight per thread | 16 |
| `--thread_n` | number of threads | 1 |
| `--direct` | open the target with `O_DIRECT` (1/0) | 1 |
| `--ioengine` | recorded and shown in the configuration only | `libaio` |

Each thread opens the target read-write and issues `size / bs` requests in
batches of `iodepth`, waiting for a whole batch before starting the next.
Sequential runs walk the blocks from the thread's start offset; random runs
pick blocks at random. Write buffers are filled with the byte `0xAB`.

### RAID options

`--raid_type` (`hard`, `soft` or `none`; default `hard`), `--raid_level`,
`--strip_size` (KB), `--num_members`, `--capability` (GB), `--raid_name`,
`--wcache`, `--rcache`, `--pdcache`, `--optimizer` and `--raid_status`
(`optl` or `degrade`).

With `--raid_type hard`:

- If `--file` is given and `lsscsi` reports a BROADCOM, LSI or AVAGO vendor
  for it, the matching virtual drive is looked up and its caches are set
  (`wrcache=AWB`/`WT`, `rdcache=ra`/`nora`, `pdcache=on`/`off`). Other
  devices are tested as plain disks.
- If `--file` is not given, a volume is created from the first
  unconfigured-good drives, the new device is found in `dmesg --ctime`, the
  volume is fully initialised (the event log is checked every 30 seconds)
  and then configured as above.
- With `--raid_status degrade`, one member drive (RAID 5) or two (RAID 6) is
  set offline before the run and set online again when `rio` finishes.

### Sweeps

`--fk_plot bw` runs sequential `read` and `write` over thread counts 1, 4,
16, 32, queue depths 1, 4, 16, 64, 256 and block sizes 64K, 128K, 256K and
1024K, plus the full-stripe size of the array (RAID 0, 5 and 6) when it is
not one of those. `--fk_plot iops` does the same for `randread` and
`randwrite` with 4K, 16K and 32K blocks. After a sweep `rio` runs
`python3 src/plot.py result/raid-<plot>-results.log <plot>`.

### Result log

Runs append to `result/raid-<plot>-results.log`, where `<plot>` is `bw`,
`iops` or `taillat`, or to `result/raid-normal-results.log` for plain runs.
The `result/` directory must already exist; otherwise a warning is logged
and the line is dropped. Each line holds the access type, queue depth,
block size in KB, thread count, bandwidth in MB/s (total data over the
slowest thread's time) and a nanosecond timestamp:

```
read, 16, 1024 , 1, 812.35, 1718000000000000000
```

## The `rio-phases` command

```
rio-phases [device] [--bs SIZE] [--iodepth N] [--size SIZE] [--jobs N]
```

Writes and then reads a region of the target (default `/dev/sda`, 1M
blocks, depth 32, 10M in total, 4 jobs) sequentially in parallel jobs, using
direct I/O when the target allows it, and prints the total MB, slowest job
time and bandwidth of each phase.

## Library use

`raidio.config.parse_options` turns an argument list into a `RioArgs`;
`raidio.engine.run_job` and `raidio.engine.run_benchmark` run the load;
`raidio.storcli.StorCli` wraps the controller commands and takes an optional
runner so that its parsing can be exercised without a controller.

## What it does not do

- Software RAID is detected from the option only; nothing is set up for it.
- `--fk_plot lat` runs no benchmark of its own; it only calls the plotting
  script. Per-request latencies are collected into a histogram in the
  returned summary but are not written to the log.
- The plotting script `src/plot.py` is not part of this package.
- `--optimizer 1` only prints a message; no settings are changed.

## Warning

Write tests overwrite the target device. Creating, initialising and
degrading a volume change the controller configuration. Run only against
disks whose contents you can lose.