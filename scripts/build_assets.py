#!/usr/bin/env python3
import argparse, json, logging, sys
from pathlib import Path
from imgtools.cache import CacheOptions
from imgtools.execution import ParallelConfig
from imgtools.plugin import ImageTools, PluginOptions
from imgtools.presets import load_preset

def _jsonable(value):
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items() if k != "image" and not isinstance(v, (bytes, bytearray))}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value

def main(argv=None):
    ap = argparse.ArgumentParser(description="Generate image variants from directive references")
    ap.add_argument("refs", nargs="+", help="references like photo.jpg?w=320;640&format=webp")
    ap.add_argument("--out","-o", default="dist/assets")
    ap.add_argument("--root", default=".")
    ap.add_argument("--public-path", default="/assets/")
    ap.add_argument("--cache-dir", default=None)
    ap.add_argument("--no-cache", action="store_true")
    ap.add_argument("--retention", type=int, default=86400)
    ap.add_argument("--mode", choices=["mtime", "checksum"], default="mtime")
    ap.add_argument("--keep-metadata", action="store_true")
    ap.add_argument("--preset", default=None)
    ap.add_argument("--parallel", type=int, default=1)
    ap.add_argument("--verbose", "-v", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s %(message)s")

    cache_dir = args.cache_dir or str(Path(args.root) / ".cache" / "imgtools")
    opts = PluginOptions(
        command="build",
        root=args.root,
        out_dir=args.out,
        public_path=args.public_path,
        remove_metadata=not args.keep_metadata,
        default_directives=load_preset(args.preset) if args.preset else None,
        cache=CacheOptions(enabled=not args.no_cache, dir=cache_dir, retention=args.retention, mode=args.mode),
    )
    tools = ImageTools(opts)

    try:
        results = tools.load_all(args.refs, ParallelConfig(max_parallel_assets=args.parallel))
    except Exception as e:
        tools.build_end(e)
        raise
    tools.build_end()

    json.dump(_jsonable(results), sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0

if __name__ == "__main__":
    sys.exit(main())
